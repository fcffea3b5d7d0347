"""Console helpers shared by the CLI: input validation and output rendering."""
