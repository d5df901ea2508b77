""" Create global bulk density and soil organic carbon maps from HWSD v1.2

(1) aggregate the soil components of HWSD_DATA to mapping unit level
(2) map the mapping unit raster to 30 arc-second bulk density & SOC geotiffs
(3) area-average both to the coarse grid (1x1 degree by default) NetCDF files

HWSD.mdb has to be converted to SQLite (or its tables exported to csv) by hand.
A run that fails must be restarted from scratch; the files it wrote are removed.
"""
import os
import argparse
import logging
import rasterio as rio
import constants
from utils import ConfigurationError, check_file, check_positive_int, check_factor, \
    check_geographic, setup_logging
from process_HWSD_utils import read_attribute_store, aggregate_mapping_units, \
    soil_unit_listing, UnitIndex
from process_HWSD_1_regrid import regrid_file
from process_HWSD_2_coarsen import coarsen_file
from process_HWSD_plot import plot_coarse


logger = logging.getLogger(__name__)


def output_files(path_out, factor):
    """ Default names of the products in path_out """
    res = f'{factor / 120:g}deg' if factor % 120 == 0 else f'x{factor}'
    return {
        'bulk_native': os.path.join(path_out, 'HWSD_BULK_DENSITY.tif'),
        'soc_native': os.path.join(path_out, 'HWSD_SOC.tif'),
        'bulk_coarse': os.path.join(path_out, f'HWSD_BULK_DENSITY_{res}.nc'),
        'soc_coarse': os.path.join(path_out, f'HWSD_SOC_{res}.nc'),
        'listing': os.path.join(path_out, 'HWSD_mapping_units.csv'),
        'plot': os.path.join(path_out, f'HWSD_SOC_{res}.png'),
    }


def check_config(raster, store, block_rows, factor):
    """ Reject invalid settings before anything is written """
    check_positive_int(block_rows, 'block_rows')
    check_file(raster, 'Mapping unit raster')
    check_file(store, 'Attribute store')
    with rio.open(raster) as src:
        check_factor(factor, src.height, src.width)
        check_geographic(src.crs, src.bounds)


def run(raster=constants.hwsd_raster, store=constants.hwsd_database,
        path_out=constants.path_intrim, block_rows=constants.block_rows,
        factor=constants.coarse_factor, files=None, plot=False):
    """ Run the whole pipeline; returns the dict of output files """
    check_config(raster, store, block_rows, factor)
    os.makedirs(path_out, exist_ok=True)
    files = dict(output_files(path_out, factor), **(files or {}))

    # files opened by this run, in order; older files in path_out are not ours
    written = []
    try:
        # (1) mapping unit level properties
        records, smu = read_attribute_store(store)
        summary = aggregate_mapping_units(records)
        written.append(files['listing'])
        soil_unit_listing(summary, smu).to_csv(files['listing'])
        unit_index = UnitIndex(summary)

        # (2) native resolution
        written += [files['bulk_native'], files['soc_native']]
        regrid_file(raster, unit_index, block_rows, files['bulk_native'], files['soc_native'])

        # (3) coarse resolution
        written.append(files['bulk_coarse'])
        coarsen_file(files['bulk_native'], factor, files['bulk_coarse'], 'BULK_DENSITY')
        written.append(files['soc_coarse'])
        coarsen_file(files['soc_native'], factor, files['soc_coarse'], 'SOC')

        if plot:
            written.append(files['plot'])
            plot_coarse(files['soc_coarse'], 'SOC', files['plot'])
    except Exception:
        logger.error('Run failed, removing the %d file(s) written by this run', len(written))
        for filename in written:
            if os.path.exists(filename):
                os.remove(filename)
        raise

    logger.info('Done')
    return files


def create_parser():
    parser = argparse.ArgumentParser(
        description='Bulk density and soil organic carbon maps from HWSD v1.2',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--raster', default=constants.hwsd_raster,
                        help='mapping unit raster (hwsd.bil)')
    parser.add_argument('--store', default=constants.hwsd_database,
                        help='SQLite file converted from HWSD.mdb, or a directory of '
                             'HWSD_DATA.csv and HWSD_SMU.csv')
    parser.add_argument('--out', default=constants.path_intrim, help='output directory')
    parser.add_argument('--block-rows', type=int, default=constants.block_rows,
                        help='rows read per block')
    parser.add_argument('--factor', type=int, default=constants.coarse_factor,
                        help='native cells per coarse cell along each dimension')
    parser.add_argument('--bulk-native', help='native bulk density geotiff')
    parser.add_argument('--soc-native', help='native SOC geotiff')
    parser.add_argument('--bulk-coarse', help='coarse bulk density NetCDF')
    parser.add_argument('--soc-coarse', help='coarse SOC NetCDF')
    parser.add_argument('--listing', help='mapping unit listing csv')
    parser.add_argument('--plot', action='store_true', help='save a quick-look map of SOC')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', help='also log to this file')
    return parser


def main(argv=None):
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    files = {k: getattr(args, k) for k in
             ['bulk_native', 'soc_native', 'bulk_coarse', 'soc_coarse', 'listing']
             if getattr(args, k) is not None}
    try:
        run(args.raster, args.store, args.out, args.block_rows, args.factor,
            files=files, plot=args.plot)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
