"""
Setup script for AI C++ Test Generator
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="ai-cpp-test-generator",
    version="1.0.0",
    author="AI C Test Generator Team",
    author_email="testgen@example.com",
    description="AI-powered C++ unit test generator with coverage validation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/your-org/ai-cpp-test-generator",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.9",
    ],
    python_requires=">=3.9",
    install_requires=[
        "google-generativeai>=0.8.4",
        "requests>=2.28",
        "pydantic>=2.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ai-cpp-testgen=ai_cpp_test_generator.cli:main",
        ],
    },
)
