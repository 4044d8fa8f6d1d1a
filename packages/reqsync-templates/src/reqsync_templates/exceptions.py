class TemplatesError(Exception):
    """An error substituting environment variables into a template."""
