from assets_packager.cli import cli

cli(prog_name="assetspkg")
