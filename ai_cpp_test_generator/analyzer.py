"""
Source Analyzer - Extracts include directives and function names from C++ source text
"""

import re
from typing import Dict, List

_COMMENTS_AND_STRINGS = re.compile(r'//.*?$|/\*.*?\*/|"(?:\\.|[^"\\])*"', re.MULTILINE | re.DOTALL)
_FUNCTION_DEFINITION = re.compile(
    r'(\w+(?:\s*[*&]|\s*::\s*\w+)?)\s+([~\w]+(?:::[~\w]+)*)\s*\([^)]*\)\s*(?:const\s*)?(?:noexcept\s*)?\{',
    re.MULTILINE,
)
_CONTROL_KEYWORDS = {'if', 'for', 'while', 'switch', 'catch', 'return', 'sizeof', 'else', 'do'}


class SourceAnalyzer:
    """Regex-based analysis of C++ translation units"""

    def analyze(self, source_text: str) -> Dict:
        return {
            'includes': self.extract_includes(source_text),
            'functions': self.extract_functions(source_text),
        }

    def extract_includes(self, source_text: str) -> List[str]:
        """Return every #include directive verbatim (trimmed), in source order"""
        includes = []
        for line in source_text.splitlines():
            trimmed = line.strip()
            if trimmed.startswith('#include'):
                includes.append(trimmed)
        return includes

    def extract_functions(self, source_text: str) -> List[Dict]:
        """Extract function definitions, skipping control-flow statements"""
        content_clean = _COMMENTS_AND_STRINGS.sub('', source_text)

        functions = []
        seen = set()
        for match in _FUNCTION_DEFINITION.finditer(content_clean):
            return_type = match.group(1).strip()
            func_name = match.group(2).strip()
            short_name = func_name.split('::')[-1]
            if return_type in _CONTROL_KEYWORDS or short_name in _CONTROL_KEYWORDS:
                continue
            if func_name in seen:
                continue
            seen.add(func_name)
            functions.append({
                'name': func_name,
                'return_type': return_type,
            })
        return functions

    def function_names(self, source_text: str) -> List[str]:
        return [func['name'] for func in self.extract_functions(source_text)]
