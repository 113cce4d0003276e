"""Change data capture from MySQL and PostgreSQL sources into MySQL and PostgreSQL targets."""

__version__ = "0.1.0"