import logging

logger = logging.getLogger("companion_sdk")
