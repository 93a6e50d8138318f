from setuptools import setup, find_packages


setup(
    name="file2html",
    version="0.1",
    packages=find_packages(include=["file2html", "file2html.*"]),
    description="Pack files into self-contained HTML pages carrying an AES-encrypted ZIP payload.",
    python_requires=">=3.10",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "file2html=file2html.cli:main",
        ]
    },
)
