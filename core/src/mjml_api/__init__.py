from mjml_api.config import ServiceConfig, load_service_config

__version__ = "1.0.0"

__all__ = [
    "ServiceConfig",
    "__version__",
    "load_service_config",
]
