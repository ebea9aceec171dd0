import re

import setuptools

# Read the version without importing pynet2 (its dependencies are not installed yet)
with open("pynet2/__init__.py", "r") as fh:
    version_tuple = re.search(r"^version_tuple = \((\d+), (\d+), (\d+)\)", fh.read(), re.M).groups()
__version__ = ".".join(version_tuple)

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pynet2",
    version=__version__,
    author="pynet2",
    description="Python module to mirror and control Paxton Net2 access-control sites",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["pynet2.tests", "pynet2.tests.*"]),
    package_data={"pynet2": ["static/*"]},
    python_requires=">=3.8",
    install_requires=[
        'requests',
        'urllib3',
        'python-dotenv',
        'python-dateutil',
        'pydantic>=2',
        'pydantic-settings>=2',
        'fastapi',
        'uvicorn',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
