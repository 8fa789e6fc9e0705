from pebblecode.cli import cli

cli()
