from setuptools import setup, find_packages

setup(
    name="imageward",
    version="0.1.0",
    description="Converge container images to a declared state against a container engine",
    author="",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.8",
    install_requires=[
        "docker>=7.0.0",
        "requests>=2.31.0",
        "paramiko>=3.4.0",
        "pyyaml>=6.0.1",
        "click>=8.1.7",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "imageward=imageward.cli:main",
        ],
    },
    include_package_data=True,
)
