"""Allow ``python -m feedrec``."""

from feedrec.cli.main import cli


cli()
