"""dexcli, a command line companion for the Dex OpenID Connect provider"""

__version__ = "0.3.0"
__author__ = "twoojoo"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2024 twoojoo"
