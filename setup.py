from glob import glob
from setuptools import setup


setup(
    name='mmrpn',
    version='0.1.0',
    description='Matrix-capable RPN calculator',
    install_requires=[
        'regex',
        'prompt_toolkit',
        'numpy',
    ],
    packages=['mmrpn'],
    package_dir={'': 'src'},
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
        ],
    },
    tests_require=[
        'pytest',
        'pytest-cov',
        'coverage',
        'flake8',
    ],
    scripts=glob('bin/*'),
    license='ISC',
)
