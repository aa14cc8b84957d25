from setuptools import find_packages, setup

setup(
    name="dynamo-denorm",
    version="0.1.0",
    packages=find_packages(include=["dynamo_denorm", "dynamo_denorm.*"]),
    python_requires=">=3.10",
    install_requires=[
        "boto3>=1.26.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
            "pytest-cov",
            "moto",
            "freezegun",
        ]
    },
)
