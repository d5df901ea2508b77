""" Map the HWSD mapping unit raster to bulk density and soil organic carbon
    at the native 30 arc-second resolution.

The global raster is 21600 x 43200; it is read and written a block of rows
at a time so the memory use does not depend on the raster size.
"""
import os
import logging
import numpy as np
import rasterio as rio
from rasterio.windows import Window
from tqdm import tqdm
from constants import native_dtype, native_nodata
from utils import check_positive_int, check_file


logger = logging.getLogger(__name__)


def iter_row_windows(height, width, block_rows):
    """ Contiguous full-width windows of block_rows rows, top to bottom.
        The last one is shorter if height is not a multiple of block_rows. """
    block_rows = check_positive_int(block_rows, 'block_rows')
    for row_start in range(0, height, block_rows):
        row_size = min(block_rows, height - row_start)
        yield Window(0, row_start, width, row_size)


def native_profile(src):
    """ Output profile: same grid and CRS as the mapping unit raster """
    profile = dict(src.profile)
    profile['driver'] = 'GTiff'
    profile['count'] = 1
    profile['dtype'] = native_dtype
    profile['nodata'] = native_nodata
    profile['compress'] = 'lzw'
    for key in ['blockxsize', 'blockysize', 'tiled', 'interleave']:
        profile.pop(key, None)
    return profile


def regrid(src, unit_index, block_rows, bulk_dst, soc_dst):
    """ Resolve every cell of src through unit_index, block by block in
        increasing row order, and write the results to the two open
        destination datasets. Cells equal to the source nodata value are
        no data. """
    block_rows = check_positive_int(block_rows, 'block_rows')
    windows = list(iter_row_windows(src.height, src.width, block_rows))

    for window in tqdm(windows, desc='Mapping raster blocks', disable=None):
        ids = src.read(1, window=window, masked=True)

        bulk, soc = unit_index.lookup_many(ids.filled(unit_index.nodata_id))
        mask = np.ma.getmaskarray(ids)
        bulk[mask] = np.nan
        soc[mask] = np.nan

        bulk_dst.write(np.where(np.isnan(bulk), native_nodata, bulk).astype(native_dtype),
                       1, window=window)
        soc_dst.write(np.where(np.isnan(soc), native_nodata, soc).astype(native_dtype),
                      1, window=window)

    return len(windows)


def regrid_file(src_file, unit_index, block_rows, bulk_file, soc_file):
    """ File-level wrapper of regrid(). If anything fails the outputs this call
        opened are removed before the error propagates. """
    block_rows = check_positive_int(block_rows, 'block_rows')
    check_file(src_file, 'Mapping unit raster')

    written = []
    try:
        with rio.open(src_file) as src:
            profile = native_profile(src)
            logger.info('Mapping %s (%dx%d) in blocks of %d rows',
                        src_file, src.height, src.width, block_rows)
            written += [bulk_file, soc_file]
            with rio.open(bulk_file, 'w', **profile) as bulk_dst, \
                 rio.open(soc_file, 'w', **profile) as soc_dst:
                bulk_dst.update_tags(1, BAND_NAME='BULK_DENSITY', units='g cm-3')
                soc_dst.update_tags(1, BAND_NAME='SOC', units='kg m-2')
                nblocks = regrid(src, unit_index, block_rows, bulk_dst, soc_dst)
    except Exception:
        logger.error('Mapping %s failed, removing partial outputs', src_file)
        for filename in written:
            if os.path.exists(filename):
                os.remove(filename)
        raise

    logger.info('Wrote %s and %s (%d blocks)', bulk_file, soc_file, nblocks)
    return bulk_file, soc_file
