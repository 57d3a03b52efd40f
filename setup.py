from setuptools import find_packages, setup


extras_require = {}

extras_require["messaging"] = [
    'pika>=1.3.2,<1.4'
]

extras_require["data-mongo"] = [
    'PyMongo>=4.6.3,<5.0',
]

extras_require["data"] = [
    *extras_require["data-mongo"],
]

extras_require["all"] = [
    *extras_require["data"],
    *extras_require["messaging"],
]

extras_require["test"] = [
    *extras_require["all"],
    'pytest>=7.4',
]


setup(
    name='steward',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    license='MIT',
    description='Organization lifecycle and access control: deletion with a grace period, '
                'ownership transfer and session revocation',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    install_requires=[
        'boto3>=1.28.55',
        'python-dotenv>=1.0.0,<2.0',
        'python-dateutil>=2.8.2,<3.0',
    ],
    extras_require=extras_require,
    python_requires=">=3.10"
)
