"""
Setup script for session-linker project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="session-linker",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dotenv",
        "redis>=5.0",
        "tenacity>=8.2",
        "httpx>=0.27",
        "fastapi>=0.110",
        "pymongo>=4.6",
    ],
    extras_require={
        "server": ["uvicorn[standard]"],
        "test": ["pytest>=8.0", "pytest-asyncio>=0.23"],
    },
)
