"""Install the identity and authorization engine."""

from setuptools import setup, find_packages

setup(
    name='idcore',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    install_requires=[
        "sqlalchemy>=1.4",
        "pytz",
        "argon2-cffi",
        "python-json-logger",
    ],
    extras_require={
        'postgres': ["psycopg2-binary"],
        'test': ["pytest", "hypothesis"],
    },
    zip_safe=False
)
