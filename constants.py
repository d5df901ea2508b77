import os
import numpy as np

path_data = os.path.join(
    os.environ.get('PROJDIR', os.getcwd()), 'Soil_Properties', 'data', 'HWSD'
)

path_intrim = os.path.join(
    os.environ.get('PROJDIR', os.getcwd()), 'Soil_Properties', 'intermediate', 'HWSD'
)

# HWSD v1.2 input files (HWSD.mdb converted to SQLite, or its tables exported to csv)
hwsd_raster = os.path.join(path_data, 'hwsd.bil')
hwsd_database = os.path.join(path_data, 'HWSD.sqlite')

# Column names of the HWSD_DATA table
#
# ID                component identifier
# MU_GLOBAL         mapping unit identifier, same as the raster cell values
# ISSOIL            1 = soil, 0 = non-soil (water, rock, glaciers, ...)
# SHARE             %           share of the mapping unit
# REF_DEPTH         cm          reference soil depth
# T_BULK_DENSITY    g/cm3       topsoil (0-30cm) bulk density
# S_BULK_DENSITY    g/cm3       subsoil (30-100cm) bulk density
# T_OC              % weight    topsoil organic carbon
# S_OC              % weight    subsoil organic carbon
data_table = 'HWSD_DATA'
smu_table = 'HWSD_SMU'
data_columns = ['ID', 'MU_GLOBAL', 'ISSOIL', 'SHARE', 'REF_DEPTH',
                'T_BULK_DENSITY', 'S_BULK_DENSITY', 'T_OC', 'S_OC']
smu_columns = ['MU_GLOBAL', 'SU_SYMBOL']

# OC [%] / 100 * BD [g/cm3] * 1000 [kg/m3 per g/cm3] * REF_DEPTH [cm] / 100
soc_factor = 0.1

# 30 arc-second native grid => 1 degree
block_rows = 1200
coarse_factor = 120

native_dtype = np.float64
native_nodata = 1e20
coarse_dtype = np.float64
coarse_fill = -9999.
