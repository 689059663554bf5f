#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md") as readme_file:
    readme = readme_file.read()

requirements = [
    "click",
    "dynaconf>=3.1.0",
    "jsonschema",
    "paramiko",
    "python-json-logger",
    "requests",
    "rich",
    "rich-click",
    "ruamel.yaml",
    "SQLAlchemy>=2.0",
]

test_requirements = ['pytest']

setup_requirements = ['setuptools', 'wheel']

extras = {
    'test': test_requirements,
    'setup': setup_requirements,
}

setup(
    name="radiusedge",
    version="0.1.0",
    description="Run RADIUS test scenarios against lab servers.",
    long_description=readme,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"radiusedge": ["scenario_schema.json"]},
    entry_points={"console_scripts": ["radiusedge=radiusedge.commands:cli"]},
    include_package_data=True,
    install_requires=requirements,
    tests_require=test_requirements,
    extras_require=extras,
    setup_requires=setup_requirements,
    python_requires=">=3.10",
    zip_safe=False,
    keywords="radius freeradius testing",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Natural Language :: English",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
