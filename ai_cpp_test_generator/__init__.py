"""
AI C++ Test Generator - Model-driven unit test generation and coverage validation for C++ codebases
"""

__version__ = "1.0.0"
