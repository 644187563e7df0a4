from setuptools import setup

__version__ = "0.3.0"
__author__ = "slk contributors"
__author_email__ = "slk@users.noreply.github.com"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2026 slk contributors"

setup( name = 'slk',
       version = __version__,
       description = 'Read Slack conversations from the terminal',
       author = __author__,
       author_email = __author_email__,
       license = __license__,
       packages = [ 'slk' ],
       zip_safe = True,
       python_requires = '>=3.8',
       install_requires = [ 'requests', 'tabulate', 'termcolor', 'cryptography>=44.0.1' ],
       extras_require = {
           'test': [ 'pytest' ],
       },
       long_description = 'Terminal client for reading Slack conversations, with a local HTTPS OAuth login.',
       entry_points = {
           'console_scripts': [
               'slk=slk.__main__:main',
           ],
       },
)
