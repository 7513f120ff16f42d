import os
import tempfile
import dotenv


dotenv.load_dotenv()


# Defaults
DEBUG = False
VERBOSE = False
LOG_PATH = "transmission_transport.log"
LOG_LEVEL = "DEBUG" if DEBUG else "INFO"
LOG_ROTATION = "1 week"
LOG_RETENTION = "1 month"

# Transmission defaults
TRANSMISSION_URL = ""
TRANSMISSION_HOST = "localhost"
TRANSMISSION_PORT = 9091
TRANSMISSION_HTTPS = False
TRANSMISSION_RPC_PATH = "/transmission/rpc"
TRANSMISSION_USERNAME = ""
TRANSMISSION_PASSWORD = ""
TRANSMISSION_TIMEOUT = 30
TRANSMISSION_USER_AGENT = ""
TRANSMISSION_VERIFY_SSL = True


def _flag(name, default):
    return os.getenv(name, str(default)).lower() == "true"


class Config:
    DEBUG = _flag("DEBUG", DEBUG)
    VERBOSE = _flag("VERBOSE", VERBOSE)

    LOG_PATH = os.getenv("LOG_PATH", LOG_PATH)
    LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL)
    LOG_ROTATION = os.getenv("LOG_ROTATION", LOG_ROTATION)
    LOG_RETENTION = os.getenv("LOG_RETENTION", LOG_RETENTION)

    # Transmission Configuration
    # A full URL takes precedence over host/port/https/path.
    TRANSMISSION_URL = os.getenv("TRANSMISSION_URL", TRANSMISSION_URL)
    TRANSMISSION_HOST = os.getenv("TRANSMISSION_HOST", TRANSMISSION_HOST)
    TRANSMISSION_PORT = int(os.getenv("TRANSMISSION_PORT", TRANSMISSION_PORT))
    TRANSMISSION_HTTPS = _flag("TRANSMISSION_HTTPS", TRANSMISSION_HTTPS)
    TRANSMISSION_RPC_PATH = os.getenv("TRANSMISSION_RPC_PATH", TRANSMISSION_RPC_PATH)
    TRANSMISSION_USERNAME = os.getenv("TRANSMISSION_USERNAME", TRANSMISSION_USERNAME)
    TRANSMISSION_PASSWORD = os.getenv("TRANSMISSION_PASSWORD", TRANSMISSION_PASSWORD)
    TRANSMISSION_TIMEOUT = float(os.getenv("TRANSMISSION_TIMEOUT", TRANSMISSION_TIMEOUT))
    TRANSMISSION_USER_AGENT = os.getenv("TRANSMISSION_USER_AGENT", TRANSMISSION_USER_AGENT)
    TRANSMISSION_VERIFY_SSL = _flag("TRANSMISSION_VERIFY_SSL", TRANSMISSION_VERIFY_SSL)

    @classmethod
    def transmission_url(cls):
        """Construct the RPC endpoint URL."""
        if cls.TRANSMISSION_URL:
            return cls.TRANSMISSION_URL
        scheme = "https" if cls.TRANSMISSION_HTTPS else "http"
        return f"{scheme}://{cls.TRANSMISSION_HOST}:{cls.TRANSMISSION_PORT}{cls.TRANSMISSION_RPC_PATH}"


class TestConfig:
    LOG_PATH = tempfile.NamedTemporaryFile().name
