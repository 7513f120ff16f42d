VERSION_TAG = "0.1.2"
VERSION_SUFFIX = "DEV"

__version__ = f"{VERSION_TAG}-{VERSION_SUFFIX}" if VERSION_SUFFIX else VERSION_TAG

USER_AGENT = f"transmission-transport/{__version__}"
