"""
Namada REST Gateway Configuration
Environment-driven settings for the gateway and its node connection
"""

import os


class Config:
    """Base configuration"""

    # Namada Node Configuration
    NODE_RPC_URL = os.getenv("NODE_RPC_URL", "http://localhost:26657")
    RPC_TIMEOUT = int(os.getenv("RPC_TIMEOUT", "10"))
    RPC_WORKERS = int(os.getenv("RPC_WORKERS", "16"))

    # Token used by the balance endpoint
    NATIVE_TOKEN_ADDRESS = os.getenv(
        "NATIVE_TOKEN_ADDRESS", "tnam1qxvg64psvhwumv3mwrrjfcz0h3t3274hwggyzcee"
    )

    # Gateway Configuration
    GATEWAY_PORT = int(os.getenv("GATEWAY_PORT", "8080"))
    GATEWAY_HOST = os.getenv("GATEWAY_HOST", "0.0.0.0")
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration"""
        errors = []

        if not cls.NODE_RPC_URL:
            errors.append("NODE_RPC_URL is required")

        if cls.GATEWAY_PORT < 1 or cls.GATEWAY_PORT > 65535:
            errors.append("GATEWAY_PORT must be between 1 and 65535")

        if cls.RPC_TIMEOUT < 1:
            errors.append("RPC_TIMEOUT must be at least 1 second")

        if cls.RPC_WORKERS < 1:
            errors.append("RPC_WORKERS must be at least 1")

        if errors:
            raise ValueError(f"Configuration validation failed: {', '.join(errors)}")


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    LOG_LEVEL = "WARNING"


class TestConfig(Config):
    """Test configuration"""

    NODE_RPC_URL = "http://localhost:26657"
    NATIVE_TOKEN_ADDRESS = "tnam1qxvg64psvhwumv3mwrrjfcz0h3t3274hwggyzcee"
    RPC_TIMEOUT = 1
    RPC_WORKERS = 4


# Environment-based configuration selection
ENV_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "test": TestConfig,
}


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("GATEWAY_ENV", "development")
    config_class = ENV_CONFIGS.get(env, DevelopmentConfig)
    config_class.validate()
    return config_class


# Export current configuration
config = get_config()
