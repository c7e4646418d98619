"""iacgate command line interface."""
