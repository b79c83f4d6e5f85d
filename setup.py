from setuptools import setup

with open('README.rst') as f:
    readme = f.read()

setup(
    name='adb_host',
    version='0.1.0',
    description='An asyncio client for the ADB server, with wrappers around the adb executable.',
    long_description=readme,
    keywords=['adb', 'android'],
    author='Jeff Irion',
    author_email='jefflirion@users.noreply.github.com',
    packages=['adb_host', 'adb_host.transport'],
    install_requires=['aiofiles>=23.1.0'],
    python_requires='>=3.8',
    classifiers=['Operating System :: OS Independent',
                 'License :: OSI Approved :: Apache Software License',
                 'Programming Language :: Python :: 3'],
    test_suite='tests'
)
