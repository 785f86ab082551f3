from setuptools import setup


setup(
    name="statement-importer",
    version="0.3.0",
    description="Bank statement ingestion and normalization for spreadsheet and CSV exports",
    packages=["statement_importer"],
    include_package_data=True,
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
        "xlrd",
    ],
    extras_require={
        "ods": ["odfpy"],
        "all": ["odfpy"],
    },
    entry_points={
        "console_scripts": [
            "statement-importer=statement_importer.cli:main",
        ]
    },
)
