from setuptools import setup

__version__ = "0.3.0"
__author__ = "twoojoo"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2024 twoojoo"

setup( name = 'dexcli',
       version = __version__,
       description = 'Command Line Interface for the Dex OpenID Connect provider',
       url = 'https://github.com/twoojoo/dexcli',
       author = __author__,
       license = __license__,
       packages = [ 'dexcli' ],
       zip_safe = True,
       python_requires = '>=3.8',
       install_requires = [ 'requests', 'pyyaml', 'pygments', 'rich', 'orjson', 'PyJWT[crypto]>=2.8.0', 'cryptography>=44.0.1' ],
       extras_require = {
           'test': [ 'pytest' ],
       },
       long_description = 'Command Line Interface for Dex, with a browser based OpenID Connect sign-in that prints the resulting token as JSON.',
       entry_points = {
           'console_scripts': [
               'dexcli=dexcli.__main__:main',
           ],
       },
)
