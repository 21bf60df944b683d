from forkline_cli.cli import app

app(prog_name="forkline")
