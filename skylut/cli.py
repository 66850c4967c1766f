"""
Command-line interface for Skylut.

Provides CLI commands for:
- Precomputing lookup tables
- Summarising saved tables
- Evaluating the sky for a single view
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from skylut import __version__

# Reduced table sizes for quick previews
SMALL_TABLE_SIZES = {
    'transmittance_texture_mu_size': 64,
    'transmittance_texture_r_size': 16,
    'scattering_texture_r_size': 8,
    'scattering_texture_mu_size': 32,
    'scattering_texture_mu_s_size': 8,
    'scattering_texture_nu_size': 4,
    'irradiance_texture_mu_s_size': 16,
    'irradiance_texture_r_size': 4,
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def run_precompute(args: argparse.Namespace) -> int:
    """Build the lookup tables and save them."""
    from skylut.core import AtmosphereModel, AtmosphereParameters, ComputeBackend

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Configuration file not found: {args.config}")
            return 1
        params = AtmosphereParameters.from_file(config_path)
    else:
        params = AtmosphereParameters.earth_default()

    if args.small:
        params = params.replace(**SMALL_TABLE_SIZES)

    model = AtmosphereModel(params, backend=ComputeBackend(workers=args.workers))
    model.init(num_scattering_orders=args.orders)
    model.save_textures(args.output)
    print(f"Tables saved to: {args.output}")

    if args.exr:
        model.save_textures_exr(args.exr)
        print(f"EXR tables saved to: {args.exr}")
    return 0


def run_info(args: argparse.Namespace) -> int:
    """Print a summary of saved tables."""
    from skylut.core import AtmosphereModel

    model = AtmosphereModel()
    model.load_textures(args.tables)
    p = model.params
    textures = model.textures

    print(f"\nAtmosphere:")
    print(f"  Radii: {p.bottom_radius:.1f} - {p.top_radius:.1f} km")
    print(f"  Mie g: {p.mie_phase_function_g:.3f}")
    print(f"  Ground albedo: {np.array2string(p.ground_albedo, precision=3)}")
    print(f"\nTables:")
    for name in ('transmittance', 'scattering', 'irradiance'):
        table = getattr(textures, name)
        print(f"  {name}: shape {table.shape}, range [{table.min():.6g}, {table.max():.6g}]")
    return 0


def run_sky(args: argparse.Namespace) -> int:
    """Evaluate sky radiance and irradiance for one camera and sun."""
    from skylut.core import AtmosphereModel, sun_direction_from_angles
    from skylut.core.render import get_sky_radiance, get_sun_and_sky_irradiance

    model = AtmosphereModel()
    model.load_textures(args.tables)
    p = model.params

    zenith = np.array([0.0, 0.0, 1.0])
    camera = zenith * (p.bottom_radius + args.altitude)
    view_ray = sun_direction_from_angles(np.radians(args.view_zenith), np.radians(args.view_azimuth))
    sun_direction = sun_direction_from_angles(np.radians(args.sun_zenith), np.radians(args.sun_azimuth))

    radiance, transmittance = get_sky_radiance(p, model.textures, camera, view_ray, sun_direction)
    sun_irradiance, sky_irradiance = get_sun_and_sky_irradiance(
        p, model.textures, camera, zenith, sun_direction)

    print(f"\nSky:")
    print(f"  Radiance: {np.array2string(radiance, precision=6)}")
    print(f"  Transmittance: {np.array2string(transmittance, precision=6)}")
    print(f"  Sun irradiance: {np.array2string(sun_irradiance, precision=6)}")
    print(f"  Sky irradiance: {np.array2string(sky_irradiance, precision=6)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skylut",
        description="Skylut: Precomputed atmospheric scattering lookup tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Quick low resolution tables
    skylut precompute --small --orders 2 -o tables.npz

    # Full tables from a parameter file, with EXR export
    skylut precompute --config mars.yaml --workers 8 -o mars.npz --exr mars_exr/

    # Sky seen 1 km up, looking at the horizon with a low sun
    skylut sky tables.npz --altitude 1 --view-zenith 85 --sun-zenith 80
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Skylut {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    precompute = subparsers.add_parser("precompute", help="Build lookup tables")
    precompute.add_argument(
        "-c", "--config",
        type=str,
        help="Path to JSON or YAML atmosphere parameter file",
    )
    precompute.add_argument(
        "--orders",
        type=int,
        default=4,
        help="Number of scattering orders",
    )
    precompute.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads (default: one per CPU; full size tables take hours on one thread)",
    )
    precompute.add_argument(
        "--small",
        action="store_true",
        help="Use reduced table sizes",
    )
    precompute.add_argument(
        "-o", "--output",
        type=str,
        default="skylut.npz",
        help="Output .npz file path",
    )
    precompute.add_argument(
        "--exr",
        type=str,
        help="Also write the tables as EXR files into this directory",
    )
    precompute.set_defaults(func=run_precompute)

    info = subparsers.add_parser("info", help="Summarise saved tables")
    info.add_argument("tables", type=str, help="Path to .npz tables")
    info.set_defaults(func=run_info)

    sky = subparsers.add_parser("sky", help="Evaluate the sky for one view")
    sky.add_argument("tables", type=str, help="Path to .npz tables")
    sky.add_argument("--altitude", type=float, default=0.0, help="Camera altitude [km]")
    sky.add_argument("--view-zenith", type=float, default=0.0, help="View zenith angle [degrees]")
    sky.add_argument("--view-azimuth", type=float, default=0.0, help="View azimuth [degrees]")
    sky.add_argument("--sun-zenith", type=float, default=0.0, help="Sun zenith angle [degrees]")
    sky.add_argument("--sun-azimuth", type=float, default=0.0, help="Sun azimuth [degrees]")
    sky.set_defaults(func=run_sky)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        return args.func(args)
    except Exception as e:
        logging.exception(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
