import typer

import cli.cli

if __name__ == "__main__":
    # Same entry point as the installed `mandala-day` script
    mandala_app: typer.Typer = cli.cli.app
    mandala_app(prog_name="mandala-day")
