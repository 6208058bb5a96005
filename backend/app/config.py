import os

# Environment variables ----------------------------------------------------
IBM_AUTH_URL_ENV = "IBM_AUTH_URL"
IBM_COS_API_KEY_ENV = "IBM_COS_API_KEY"
IBM_COS_SERVICE_INSTANCE_ID_ENV = "IBM_COS_SERVICE_INSTANCE_ID"
IBM_COS_ENDPOINT_ENV = "IBM_COS_ENDPOINT"
IBM_COS_BUCKET_NAME_ENV = "IBM_COS_BUCKET_NAME"
IBM_WATSON_API_KEY_ENV = "IBM_WATSON_API_KEY"
IBM_WATSON_ENDPOINT_ENV = "IBM_WATSON_ENDPOINT"
IBM_WATSON_SPACE_ID_ENV = "IBM_WATSON_SPACE_ID"
IBM_WATSON_JOB_ID_ENV = "IBM_WATSON_JOB_ID"

DEFAULT_AUTH_URL = "https://iam.cloud.ibm.com/identity/token"
DEFAULT_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
DEFAULT_COS_ENDPOINT = "https://s3.us-south.cloud-object-storage.appdomain.cloud"
DEFAULT_WATSON_ENDPOINT = "https://api.dataplatform.cloud.ibm.com"

# IBM tokens live for one hour; refresh five minutes early.
DEFAULT_TOKEN_TTL = 3300
DEFAULT_STATUS_CHECK_INTERVAL = 10
DEFAULT_MAX_STATUS_CHECKS = 180  # 30 minutes at the default interval
DEFAULT_HTTP_TIMEOUT = 30


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> dict:
    """Read the external-service settings from the environment.

    The returned mapping is merged into ``app.config`` by ``create_app``;
    anything passed as ``test_config`` wins over these values.
    """
    return {
        "IBM_AUTH_URL": os.getenv(IBM_AUTH_URL_ENV, DEFAULT_AUTH_URL),
        "IBM_AUTH_GRANT_TYPE": os.getenv("IBM_AUTH_GRANT_TYPE", DEFAULT_GRANT_TYPE),
        "IBM_COS_API_KEY": os.getenv(IBM_COS_API_KEY_ENV, ""),
        "IBM_COS_SERVICE_INSTANCE_ID": os.getenv(IBM_COS_SERVICE_INSTANCE_ID_ENV, ""),
        "IBM_COS_ENDPOINT": os.getenv(IBM_COS_ENDPOINT_ENV, DEFAULT_COS_ENDPOINT),
        "IBM_COS_BUCKET_NAME": os.getenv(IBM_COS_BUCKET_NAME_ENV, ""),
        "IBM_WATSON_API_KEY": os.getenv(IBM_WATSON_API_KEY_ENV, ""),
        "IBM_WATSON_ENDPOINT": os.getenv(IBM_WATSON_ENDPOINT_ENV, DEFAULT_WATSON_ENDPOINT),
        "IBM_WATSON_SPACE_ID": os.getenv(IBM_WATSON_SPACE_ID_ENV, ""),
        "IBM_WATSON_JOB_ID": os.getenv(IBM_WATSON_JOB_ID_ENV, ""),
        "IBM_TOKEN_TTL": _env_int("IBM_TOKEN_TTL", DEFAULT_TOKEN_TTL),
        "STATUS_CHECK_INTERVAL": _env_int("STATUS_CHECK_INTERVAL", DEFAULT_STATUS_CHECK_INTERVAL),
        "MAX_STATUS_CHECKS": _env_int("MAX_STATUS_CHECKS", DEFAULT_MAX_STATUS_CHECKS),
        "HTTP_TIMEOUT": _env_int("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        "STATUS_POLLING_ENABLED": _env_bool("STATUS_POLLING_ENABLED", True),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    }
