import logging

"""
Create the package-wide logger instance.

Messages are not propagated to the root logger, so applications that configure logging globally
should attach their own handlers to `ammsync.logging.logger` to capture them.
"""

logger = logging.getLogger(__name__)
logger.propagate = False
logger.setLevel(logging.INFO)
logger.addHandler(logging.StreamHandler())
