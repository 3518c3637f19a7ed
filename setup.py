from setuptools import setup, find_packages
from pathlib import Path

# read the contents of your README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

# find packages
packages = find_packages(exclude=("tests", "tests.*"))

# setup
setup(
    name='pytorch-localopt',
    version='0.1.0',
    description='Local unconstrained minimization methods with PyTorch',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT Licence',
    packages=packages,
    zip_safe=False,
    install_requires=[
        'numpy>=1.18.0',
        'scipy>=1.8',
        'torch>=2.0.0'
    ],
    extras_require={
        'test': ['pytest'],
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ]
)
