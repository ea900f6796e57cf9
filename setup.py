from setuptools import setup


setup(
    name="ledger-import",
    version="0.1.0",
    description="Import expense and income rows from messy CSV and spreadsheet exports",
    packages=["ledger_import"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ledger-import=ledger_import.cli:main",
        ]
    },
)
