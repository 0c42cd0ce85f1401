from setuptools import find_packages, setup

setup(
    name='ssl-inspect',
    version='1.0.0',
    description='Inspect the TLS certificate served by a host over a small HTTP JSON API',
    license='MIT',
    python_requires='>=3.8',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    install_requires=[
        'cryptography>=42',
        'pyOpenSSL',
        'coloredlogs',
        'flask>=2.2',
        'shtab',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'ssl-inspect = ssl_inspect.main:main',
        ],
    },
)
