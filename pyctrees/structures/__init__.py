from .structures import *  # noqa: F401,F403
