"""Legacy Bridge - Migrate legacy price guide data into the relational schema."""

import logging
import warnings

__version__ = "0.1.0"
__author__ = "Legacy Bridge Team"
__license__ = "Apache-2.0"

# Suppress verbose third-party library logging
logging.getLogger("pymongo").setLevel(logging.WARNING)
logging.getLogger("pymongo.topology").setLevel(logging.ERROR)
logging.getLogger("pymongo.connection").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

warnings.filterwarnings("ignore", category=DeprecationWarning, module="pymongo")
