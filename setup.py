from setuptools import setup, find_packages

setup(
    name="v8coveragelib",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2",
        "pyyaml",
        "httpx",
        "aiofiles>=0.8",
        "tree-sitter>=0.23",
        "tree-sitter-javascript>=0.23",
        "sourcemap",
        "python-slugify",
        "wcmatch",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "v8cov-convert=v8coveragelib.cli:convert_cli",
            "v8cov-merge=v8coveragelib.cli:merge_cli",
            "v8cov-summary=v8coveragelib.cli:summary_cli",
        ],
    },
    description="Convert, filter and merge V8 JavaScript coverage into Istanbul coverage maps",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
