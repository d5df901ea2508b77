import os
import sys
import logging
import numpy as np
from rasterio.crs import CRS
from rasterio.transform import xy
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """ Invalid pipeline settings, raised before any output is written """


def check_positive_int(value, name: str) -> int:
    """ Block sizes and aggregation factors must be positive integers """
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f'{name} must be an integer, got {value!r}')
    if value <= 0:
        raise ConfigurationError(f'{name} must be positive, got {value}')
    return int(value)


def check_factor(factor, height: int, width: int) -> int:
    """ The aggregation factor cannot exceed either raster dimension """
    factor = check_positive_int(factor, 'factor')
    if factor > height or factor > width:
        raise ConfigurationError(
            f'factor {factor} is larger than the raster dimensions {height}x{width}')
    return factor


def check_file(path: str, what: str) -> str:
    if not os.path.exists(path):
        raise ConfigurationError(f'{what} not found: {path}')
    return path


def check_geographic(crs, bounds) -> CRS:
    """ The coarse grid is written as lat/lon and the area average treats all
        cells as equal-area, so the raster must be on a geographic CRS. A
        raster without CRS (hwsd.bil ships without .prj) is taken as WGS84 if
        its bounds fit in lon/lat ranges. """
    if not crs:
        left, bottom, right, top = bounds
        if -180.001 <= left <= right <= 180.001 and -90.001 <= bottom <= top <= 90.001:
            logger.warning('Raster has no CRS; assuming EPSG:4326 from its bounds')
            return CRS.from_epsg(4326)
        raise ConfigurationError(f'Raster has no CRS and its bounds {tuple(bounds)} are not lon/lat')
    if not crs.is_geographic:
        raise ConfigurationError(f'Raster must be on a geographic (lat/lon) CRS, got {crs.to_string()}')
    return crs


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """ Console logging, plus a file handler that captures everything if log_file is given """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_latlon(transform, height: int, width: int) -> Tuple[np.ndarray, np.ndarray]:
    """ Get the lat & lon vectors of the cell centres of a north-up grid """
    # rows = 0 ... h-1 (southward is +row); cols = 0 ... w-1 (eastward is +col)
    rows = np.arange(height)
    cols = np.arange(width)

    lon, _ = xy(transform, np.zeros(width, dtype=int), cols, offset='center')
    _, lat = xy(transform, rows, np.zeros(height, dtype=int), offset='center')

    lat = np.atleast_1d(np.asarray(lat, dtype=np.float64))
    lon = np.atleast_1d(np.asarray(lon, dtype=np.float64))
    return lat, lon


def block_mean(data: np.ndarray, factor: int) -> np.ndarray:
    """
    Area-average a 2D field onto a grid that is `factor` times coarser in
    both dimensions.

    Every coarse cell is the arithmetic mean of the non-missing (non-NaN)
    native cells in its factor x factor footprint. Native cells are treated
    as equal-area, which only holds for a uniform lat/lon grid. When the
    dimensions are not multiples of factor, the last row/column of coarse
    cells averages the partial footprint that exists.

    Parameters:
    -----------
    data : np.ndarray
        2D array, NaN marks missing cells.

    factor : int
        Number of native cells per coarse cell along each dimension.

    Returns:
    --------
    np.ndarray
        float64 array with shape (ceil(ny/factor), ceil(nx/factor)). Coarse
        cells without any valid native cell are NaN.
    """
    factor = check_positive_int(factor, 'factor')
    data = np.asarray(data, dtype=np.float64)
    if data.ndim != 2:
        raise ValueError(f'Expected a 2D array, got shape {data.shape}')

    ny, nx = data.shape
    ncy = -(-ny // factor)
    ncx = -(-nx // factor)

    padded = np.full([ncy * factor, ncx * factor], np.nan)
    padded[:ny, :nx] = data
    blocks = padded.reshape(ncy, factor, ncx, factor)

    valid = np.isfinite(blocks)
    count = valid.sum(axis=(1, 3))

    # mean = min + mean(x - min), so that a uniform block returns its value exactly
    lowest = np.where(valid, blocks, np.inf).min(axis=(1, 3))
    lowest = np.where(count > 0, lowest, 0.)
    excess = np.where(valid, blocks - lowest[:, None, :, None], 0.).sum(axis=(1, 3))

    output = np.full([ncy, ncx], np.nan)
    filt = count > 0
    output[filt] = lowest[filt] + excess[filt] / count[filt]
    return output
