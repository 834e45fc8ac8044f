"""Command line entry point.

Usage:
    lut-action serve [--host 0.0.0.0] [--port 8080]
    lut-action import-luts ./luts        # register every .cube file in a directory
    lut-action validate-lut look.cube
"""

import argparse
import logging
import sys

from lut_action.config import settings


def _serve(args) -> int:
    import uvicorn

    uvicorn.run("lut_action.main:app", host=args.host, port=args.port, reload=False)
    return 0


def _import_luts(args) -> int:
    from lut_action.luts.registry import registry

    registry.load()
    imported, failures = registry.import_directory(args.directory)
    for lut in imported:
        print(f"  {lut.id}  {lut.name}  ({lut.type.value} {lut.lattice}, {lut.colorspace.value})")
    for filename, reason in failures.items():
        print(f"  FAILED {filename}: {reason}", file=sys.stderr)
    print(f"Imported {len(imported)} LUT(s), {len(failures)} failure(s)")
    return 1 if failures and not imported else 0


def _validate_lut(args) -> int:
    from lut_action.luts import cube

    with open(args.path, "rb") as f:
        result = cube.validate(f.read())
    for error in result.errors:
        print(f"ERROR: {error}")
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    print("valid" if result.valid else "invalid", result.details)
    return 0 if result.valid else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="lut-action", description="LUT Action Service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="0.0.0.0", help="Server host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=settings.port, help=f"Server port (default: {settings.port})")
    serve.set_defaults(func=_serve)

    importer = sub.add_parser("import-luts", help="Register every .cube file in a directory")
    importer.add_argument("directory")
    importer.set_defaults(func=_import_luts)

    validator = sub.add_parser("validate-lut", help="Check a .cube file without storing it")
    validator.add_argument("path")
    validator.set_defaults(func=_validate_lut)

    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper())
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
