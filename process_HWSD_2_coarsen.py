""" Area-average the native resolution bulk density and SOC maps to the
    coarse (by default 1x1 degree) grid and save them as NetCDF.
"""
import logging
import numpy as np
import rasterio as rio
from affine import Affine
from rasterio.windows import Window
from netCDF4 import Dataset
from tqdm import tqdm
from constants import coarse_dtype, coarse_fill
from utils import block_mean, check_factor, check_file, check_geographic, get_latlon


logger = logging.getLogger(__name__)


coarse_variables = {
    'SOC': {'units': 'kg m^-2',
            'long_name': 'soil organic carbon density',
            'standard_name': 'soil_organic_carbon_density'},
    'BULK_DENSITY': {'units': 'g cm^-3',
                     'long_name': 'soil bulk density',
                     'standard_name': 'soil_bulk_density'},
}


def coarsen(src, factor):
    """ Block-mean of band 1 of an open raster, streamed in strips of factor rows.
        Returns the coarse array (NaN = no data) and its lat & lon vectors. """
    factor = check_factor(factor, src.height, src.width)

    strips = []
    for row_start in tqdm(range(0, src.height, factor), desc='Area averaging', disable=None):
        row_size = min(factor, src.height - row_start)
        window = Window(0, row_start, src.width, row_size)
        data = src.read(1, window=window, masked=True).astype(np.float64).filled(np.nan)
        strips.append(block_mean(data, factor)[0, :])
    data = np.vstack(strips)

    transform = src.transform * Affine.scale(factor, factor)
    lat, lon = get_latlon(transform, data.shape[0], data.shape[1])
    return data, lat, lon


def create_file(nc_path, lat, lon, factor, source, crs):
    """ Create the netCDF4 file that will hold the coarse data variable """
    with Dataset(nc_path, mode='w', format='NETCDF4') as ds:
        ds.createDimension('lat', len(lat))
        ds.createDimension('lon', len(lon))

        vlat = ds.createVariable('lat', np.float64, ('lat',))
        vlat.standard_name = 'latitude'
        vlat.long_name = 'latitude'
        vlat.units = 'degrees_north'
        vlat[:] = lat

        vlon = ds.createVariable('lon', np.float64, ('lon',))
        vlon.standard_name = 'longitude'
        vlon.long_name = 'longitude'
        vlon.units = 'degrees_east'
        vlon[:] = lon

        ds.title = 'Harmonized World Soil Database v1.2, area-averaged'
        ds.source = source
        ds.aggregation = f'arithmetic mean of {factor}x{factor} native cells, no data excluded'
        ds.geodetic_datum = crs.to_string()

        # CF grid mapping, referenced by the data variables
        vcrs = ds.createVariable('crs', np.int32)
        vcrs.grid_mapping_name = 'latitude_longitude'
        vcrs.crs_wkt = crs.to_wkt()


def append_variable(nc_path, data, var_name, fill_value=coarse_fill, **attrs):
    """ Append a 2D (lat, lon) array to the netCDF file; NaN is written as fill_value """
    with Dataset(nc_path, mode='a') as ds:
        v = ds.createVariable(var_name, coarse_dtype, ('lat', 'lon'),
                              zlib=True, complevel=4, fill_value=fill_value)
        v.missing_value = coarse_dtype(fill_value)
        v.grid_mapping = 'crs'
        for k, v_attr in attrs.items():
            setattr(v, k, v_attr)
        v[:, :] = np.ma.masked_invalid(data)
        ds.sync()


def coarsen_file(native_file, factor, nc_path, var_name, units=None, long_name=None):
    """ Area-average one native GeoTIFF and save it as a self-describing NetCDF """
    check_file(native_file, 'Native raster')
    attrs = dict(coarse_variables.get(var_name, {}))
    if units is not None:
        attrs['units'] = units
    if long_name is not None:
        attrs['long_name'] = long_name

    with rio.open(native_file) as src:
        crs = check_geographic(src.crs, src.bounds)
        data, lat, lon = coarsen(src, factor)

    create_file(nc_path, lat, lon, factor, source=native_file, crs=crs)
    append_variable(nc_path, data, var_name, **attrs)

    logger.info('Wrote %s (%dx%d, %d cells without data)',
                nc_path, data.shape[0], data.shape[1], np.isnan(data).sum())
    return data
