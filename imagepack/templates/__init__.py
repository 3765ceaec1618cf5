"""Text templates with ``${key}`` placeholders and their packaged defaults."""
