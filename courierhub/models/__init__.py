# Database models
#
# Import core so both tables are registered on Base.metadata before
# create_all runs at startup.

from . import core
