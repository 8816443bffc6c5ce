"""
dbreverse - Database Reverse-Engineering Code Generator
Install: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="dbreverse",
    version="0.1.0",
    author="Diegoproggramer",
    author_email="",
    description="Reverse-engineer a database schema into SQLAlchemy entities and Pydantic inputs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Diegoproggramer/dbreverse",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "Topic :: Database",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "sqlalchemy>=2.0.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "black>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dbreverse=dbreverse.cli:cli_main",
        ],
    },
    keywords="sqlalchemy, pydantic, reverse-engineering, database, code-generator, orm",
    project_urls={
        "Bug Reports": "https://github.com/Diegoproggramer/dbreverse/issues",
        "Source": "https://github.com/Diegoproggramer/dbreverse",
    },
)
