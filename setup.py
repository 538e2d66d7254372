"""Install the RMS user, rights and session package."""

from setuptools import setup, find_packages

setup(
    name='rms',
    version='0.1.0',
    packages=find_packages(include=['rms', 'rms.*']),
    python_requires='>=3.8',
    install_requires=[
        "pycountry",
        "pytz",
        "sqlalchemy>=1.4",
        "flask>=2.2",
        "flask-sqlalchemy>=3.0",
        "pyjwt[crypto]>=2.4",
        "click",
        "python-json-logger",
        "email-validator>=2.0",
    ],
    extras_require={
        'mysql': ["mysqlclient"],
        'test': ["pytest", "hypothesis", "mimesis"],
    },
    entry_points={
        'console_scripts': ['rms-user=rms.cli:main'],
    },
    zip_safe=False
)
