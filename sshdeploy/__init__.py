"""sshdeploy - SSH-key based continuous deployment to a single server."""

__version__ = "1.0.0"
