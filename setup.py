from setuptools import setup, find_packages

setup(
    name="dfbuild",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0",
        "click>=8.0",
        "docker>=7.0,<8",
        "requests>=2.28",
        "boto3>=1.28",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dfbuild=dfbuild.CLI.main:main",
        ],
    },
)
