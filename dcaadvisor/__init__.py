"""dcaadvisor - a tool-using reasoning agent for crypto dollar-cost averaging advice."""

import warnings

__version__ = "0.1.0"


# ccxt's aiohttp sessions are closed explicitly, but aiohttp still warns when
# the interpreter tears down the event loop first.
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", message="Unclosed connector")
