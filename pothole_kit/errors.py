class ConfigurationError(ValueError):
    """
    Raised when the model output, image size or detector settings do not fit together.

    This is a setup bug (wrong model for the config, bad JSON, ...), so it is never
    caught inside the package and should surface to the caller immediately.
    """
