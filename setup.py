# This should be only one line. If it must be multi-line, indent the second
# line onwards to keep the PKG-INFO file format intact.
"""A command line interface to read, write and explore secrets in Vault.
"""

from setuptools import find_packages, setup

version = open("src/safe/version.txt").read().strip()

setup(
    name="safe-cli",
    version=version,
    install_requires=[
        "requests",
        "py",
        "pyyaml", ],
    extras_require={
        "test": [
            "mock",
            "pytest",
            "pytest-coverage",
            "pytest-instafail",
            "pytest-timeout", ]},
    entry_points="""
        [console_scripts]
            safe = safe.main:main
    """,
    license="BSD (2-clause)",
    keywords="vault secrets",
    classifiers="""\
License :: OSI Approved :: BSD License
Programming Language :: Python
Programming Language :: Python :: 3
Programming Language :: Python :: 3.6
Programming Language :: Python :: 3.7
Programming Language :: Python :: 3.8
Programming Language :: Python :: 3.9
Programming Language :: Python :: 3 :: Only
"""[:-1].split("\n"),
    description=__doc__.strip(),
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages("src"),
    package_dir={"": "src"},
    package_data={"safe": ["version.txt"]},
    include_package_data=True,
    zip_safe=False,
    test_suite="safe.tests",
    python_requires=">=3.6")
