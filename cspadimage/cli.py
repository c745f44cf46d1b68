"""
Command-line interface for CSPad image assembly.

Provides utilities to inspect the pixel coordinate table and to assemble
raw CSPad arrays saved as .npy files.
"""

import argparse
import sys
import numpy as np
from .geometry_definitions import CALIB_TYPE_GROUP, NUM_QUADS
from .calibration import CalibrationManager, GeometryUnavailableError
from .geometry import PixelCoordinateTable
from .data_types import NDArrayType
from .event_store import ConfigStore, Env, Event
from .image_producer import CSPadImageProducer, ProducerConfig
from .assembly import OUTPUT_TYPES, resolve_output_dtype


DEFAULT_SOURCE = "CxiDs1.0:Cspad.0"


def geometry_command(calib_dir: str = None, source: str = DEFAULT_SOURCE, run_number: int = 0,
                     type_group: str = CALIB_TYPE_GROUP, tilt_is_applied: bool = True,
                     output_file: str = None):
    """Build the pixel coordinate table and show its extent"""
    print(f"Building CSPad geometry for {source} run {run_number}...")

    try:
        manager = CalibrationManager(calib_dir, type_group)
        pars = manager.load_calib_pars(source, run_number)
        table = PixelCoordinateTable.from_calib_pars(pars, tilt_is_applied)
    except GeometryUnavailableError as e:
        print(f"Error loading calibration: {e}")
        return 1

    print("Calibration constants:")
    for name, origin in pars.origins.items():
        print(f"  {name}: {origin}")
    print()

    bounds = table.bounds()
    print(f"Image shape: {table.image_shape}")
    print(f"X range: {bounds['x_min']:.1f} to {bounds['x_max']:.1f} pixels")
    print(f"Y range: {bounds['y_min']:.1f} to {bounds['y_max']:.1f} pixels")
    print(f"Pixels on canvas: {table.in_canvas_count():,} of {table.in_canvas.size:,}")
    for quad in range(NUM_QUADS):
        print(f"  Quad {quad}: {table.in_canvas_count(quad):,}")

    if output_file:
        table.save(output_file)
        print(f"Table saved to: {output_file}")

    return 0


def assemble_command(input_file: str, output_file: str = None, table_file: str = None,
                     calib_dir: str = None, source: str = DEFAULT_SOURCE, run_number: int = 0,
                     out_type: str = "asdata", tilt_is_applied: bool = True, print_bits: int = 0,
                     pixmap_file: str = None, pixnum_file: str = None):
    """Assemble a raw [N, 185, 388] array into an image"""
    print(f"Assembling CSPad image from: {input_file}")

    try:
        sections = np.load(input_file)
    except (OSError, ValueError) as e:
        print(f"Error reading input: {e}")
        return 1

    print(f"Input shape: {sections.shape}, dtype: {sections.dtype}")

    try:
        config = ProducerConfig(source=source, calib_dir=calib_dir, out_type=out_type,
                                tilt_is_applied=tilt_is_applied, print_bits=print_bits,
                                fname_pixmap=pixmap_file, fname_pixnum=pixnum_file)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    producer = CSPadImageProducer(config)
    if table_file:
        producer.set_pixel_coordinate_table(PixelCoordinateTable.load(table_file))

    env = Env(ConfigStore(), run_number=run_number)
    evt = Event()
    evt.put(sections, source, config.input_key)

    try:
        producer.begin_job(evt, env)
        producer.begin_run(evt, env)
        producer.begin_calib_cycle(evt, env)
        producer.event(evt, env)
        producer.end_calib_cycle(evt, env)
        producer.end_run(evt, env)
        producer.end_job(evt, env)
    except GeometryUnavailableError as e:
        print(f"Error loading calibration: {e}")
        return 1

    image_type = NDArrayType(resolve_output_dtype(out_type, sections.dtype), ndim=2, readonly=False)
    image = evt.get(image_type, source, config.image_key)

    if image is None:
        print(f"No image produced for input of shape {sections.shape} and dtype {sections.dtype}")
        return 1

    print(f"Image shape: {image.shape}, dtype: {image.dtype}")
    print(f"Image sum: {image.sum(dtype=np.float64):.6g}, non-zero pixels: {np.count_nonzero(image):,}")

    if output_file:
        np.save(output_file, image)
        print(f"Image saved to: {output_file}")

    return 0


def main():
    """Main command-line interface"""
    parser = argparse.ArgumentParser(
        description="cspadimage - CSPad image assembly",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cspadimage geometry                                   # Nominal geometry
  cspadimage geometry --calib-dir calib --run 42 -o table.npz
  cspadimage assemble raw.npy -o image.npy              # Assemble [32,185,388] array
  cspadimage assemble raw.npy --table table.npz --out-type float
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    def add_calib_arguments(sub):
        sub.add_argument('--calib-dir', help='Calibration directory (default: nominal geometry)')
        sub.add_argument('--source', default=DEFAULT_SOURCE,
                         help=f'Detector source (default: {DEFAULT_SOURCE})')
        sub.add_argument('--run', type=int, default=0, help='Run number (default: 0)')
        sub.add_argument('--no-tilt', action='store_true',
                         help='Ignore section and quad tilt angles')

    # Geometry command
    geometry_parser = subparsers.add_parser('geometry', help='Build pixel coordinate table')
    add_calib_arguments(geometry_parser)
    geometry_parser.add_argument('--type-group', default=CALIB_TYPE_GROUP,
                                 help=f'Calibration type group (default: {CALIB_TYPE_GROUP})')
    geometry_parser.add_argument('--output', '-o', help='Save table to file (.npz format)')

    # Assemble command
    assemble_parser = subparsers.add_parser('assemble', help='Assemble raw CSPad array')
    assemble_parser.add_argument('input', help='Raw array [N, 185, 388] (.npy format)')
    add_calib_arguments(assemble_parser)
    assemble_parser.add_argument('--table', help='Prebuilt pixel coordinate table (.npz)')
    assemble_parser.add_argument('--out-type', choices=list(OUTPUT_TYPES), default='asdata',
                                 help='Image data type (default: asdata)')
    assemble_parser.add_argument('--print-bits', type=int, default=0,
                                 help='Diagnostic verbosity bitmask (default: 0)')
    assemble_parser.add_argument('--output', '-o', help='Save image to file (.npy format)')
    assemble_parser.add_argument('--pixmap', help='Save active pixel count map (.npy format)')
    assemble_parser.add_argument('--pixnum', help='Save active pixel number map (.npy format)')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'geometry':
        return geometry_command(args.calib_dir, args.source, args.run, args.type_group,
                                not args.no_tilt, args.output)

    elif args.command == 'assemble':
        return assemble_command(args.input, args.output, args.table, args.calib_dir,
                                args.source, args.run, args.out_type, not args.no_tilt,
                                args.print_bits, args.pixmap, args.pixnum)

    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
