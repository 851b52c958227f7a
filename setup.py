"""Setup script for assistant-rag package."""

from setuptools import setup, find_packages

setup(
    name="assistant-rag",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    py_modules=["main"],
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "python-dotenv",
        "supabase",
        "openai>=1.6.0",
        "mirascope[openai]>=1.0,<2",
        "pydantic>=2",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "assistant-rag=main:main",
        ],
    },
    python_requires=">=3.11",
)
