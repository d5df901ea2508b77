""" Read the HWSD attribute tables, aggregate the soil components to mapping
    unit level, and build the lookup used to map the raster """
import os
import sqlite3
import logging
from contextlib import closing
import numpy as np
import pandas as pd
from tqdm import tqdm
from constants import data_table, smu_table, data_columns, smu_columns, soc_factor
from utils import ConfigurationError, check_file


logger = logging.getLogger(__name__)


############################################################
# Relationship between the raster and the tables
#
# Each raster cell holds a mapping unit (MU_GLOBAL). Each
# mapping unit contains one or more soil components (rows of
# HWSD_DATA), each covering SHARE % of the mapping unit.
# HWSD_SMU holds one row per mapping unit with its dominant
# soil type (SU_SYMBOL).
############################################################
numeric_columns = ['ISSOIL', 'SHARE', 'REF_DEPTH', 'T_BULK_DENSITY',
                   'S_BULK_DENSITY', 'T_OC', 'S_OC']


def _has_table(conn, table):
    query = "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"
    return conn.execute(query, (table,)).fetchone() is not None


def _check_columns(df, columns, table):
    missing = [c for c in columns if c not in df.columns]
    if len(missing) > 0:
        raise ConfigurationError(f'{table} is missing the column(s) {missing}')


def read_attribute_store(store):
    """ Read HWSD_DATA and HWSD_SMU from either a SQLite database converted
        from HWSD.mdb, or a directory containing the tables exported to csv.

        HWSD_SMU is informational only; None is returned if it is absent.
    """
    check_file(store, 'Attribute store')

    if os.path.isdir(store):
        data = pd.read_csv(check_file(os.path.join(store, f'{data_table}.csv'),
                                      f'{data_table} table'))
        smu_file = os.path.join(store, f'{smu_table}.csv')
        smu = pd.read_csv(smu_file) if os.path.exists(smu_file) else None
    else:
        with closing(sqlite3.connect(store)) as conn:
            if not _has_table(conn, data_table):
                raise ConfigurationError(f'{store} has no {data_table} table')
            data = pd.read_sql_query(f'SELECT * FROM {data_table}', conn)
            if _has_table(conn, smu_table):
                smu = pd.read_sql_query(f'SELECT * FROM {smu_table}', conn)
            else:
                smu = None

    _check_columns(data, data_columns, data_table)
    data = data[data_columns].copy()
    # the Access export is not always typed; anything non-numeric becomes missing
    for col in numeric_columns:
        data[col] = pd.to_numeric(data[col], errors='coerce')
    data['MU_GLOBAL'] = pd.to_numeric(data['MU_GLOBAL'], errors='coerce')
    data = data.loc[data['MU_GLOBAL'].notna(), :]
    data['MU_GLOBAL'] = data['MU_GLOBAL'].astype(np.int64)

    if smu is not None:
        _check_columns(smu, smu_columns, smu_table)
        smu = smu[smu_columns].copy()
        smu['MU_GLOBAL'] = pd.to_numeric(smu['MU_GLOBAL'], errors='coerce')
        smu = smu.loc[smu['MU_GLOBAL'].notna(), :]
        smu['MU_GLOBAL'] = smu['MU_GLOBAL'].astype(np.int64)
        smu = smu.drop_duplicates('MU_GLOBAL').set_index('MU_GLOBAL')

    logger.info('Read %d soil components in %d mapping units from %s',
                len(data), data['MU_GLOBAL'].nunique(), store)
    return data, smu


def share_weighted_mean(values, share):
    """ Mean of the non-missing values, weighted by the share normalized over
        the components that have a value. NaN if nothing is left to average. """
    values = np.asarray(values, dtype=np.float64)
    share = np.asarray(share, dtype=np.float64)

    filt = np.isfinite(values) & np.isfinite(share)
    total = np.sum(share[filt])
    if not np.any(filt) or total == 0:
        return np.nan

    result = np.sum(values[filt] * share[filt]) / total
    return float(result) if np.isfinite(result) else np.nan


def aggregate_components(group):
    """
    Reduce the soil components of one mapping unit to (bulk density, SOC).

    - Only soil components count: ISSOIL == 0 is dropped, a missing flag is
      treated as soil.
    - Topsoil values are used where present, subsoil values otherwise.
    - SOC (kg m-2) = OC (%) * BD (g cm-3) * REF_DEPTH (cm) * 0.1
    - Both are share-weighted means over the components with a value.

    Shares are used as given; they are not required to sum to 100.
    """
    soil = group.loc[group['ISSOIL'] != 0, :]
    if len(soil) == 0:
        return np.nan, np.nan

    bulk = soil['T_BULK_DENSITY'].fillna(soil['S_BULK_DENSITY'])
    carbon = soil['T_OC'].fillna(soil['S_OC'])
    soc = carbon * bulk * soil['REF_DEPTH'] * soc_factor

    return share_weighted_mean(bulk, soil['SHARE']), share_weighted_mean(soc, soil['SHARE'])


def aggregate_mapping_units(records):
    """ One row per MU_GLOBAL with the aggregated bulk_density and soc;
        mapping units without usable components are kept, with NaN values """
    summary = []
    for mu, group in tqdm(records.groupby('MU_GLOBAL', sort=True),
                          desc='Aggregating mapping units', disable=None):
        bulk, soc = aggregate_components(group)
        summary.append([mu, bulk, soc, len(group)])
    summary = pd.DataFrame(summary, columns=['MU_GLOBAL', 'bulk_density', 'soc', 'n_components'])
    summary['MU_GLOBAL'] = summary['MU_GLOBAL'].astype(np.int64)
    summary = summary.set_index('MU_GLOBAL')

    logger.info('%d mapping units, %d without bulk density, %d without SOC',
                len(summary), summary['bulk_density'].isna().sum(), summary['soc'].isna().sum())
    return summary


def soil_unit_listing(summary, smu=None):
    """ Attach the soil type symbol of each mapping unit to the summary """
    listing = summary.copy()
    if smu is not None:
        listing = listing.join(smu['SU_SYMBOL'], how='left')
    else:
        listing['SU_SYMBOL'] = None
    return listing[['SU_SYMBOL', 'n_components', 'bulk_density', 'soc']]


class UnitIndex:
    """ Lookup from mapping unit identifier to (bulk density, SOC).

        Identifier 0 and identifiers that are not in the summary resolve to
        NaN (no data). """

    nodata_id = 0

    def __init__(self, summary: pd.DataFrame):
        if summary.index.has_duplicates:
            raise ValueError('Mapping unit identifiers must be unique')
        summary = summary.loc[summary.index != self.nodata_id, :]

        self._index = pd.Index(summary.index.to_numpy(dtype=np.int64))
        self._bulk = self._as_values(summary['bulk_density'])
        self._soc = self._as_values(summary['soc'])

    @staticmethod
    def _as_values(column):
        values = column.to_numpy(dtype=np.float64, na_value=np.nan)
        # anything non-finite is no data, not a value
        return np.where(np.isfinite(values), values, np.nan)

    @classmethod
    def from_records(cls, records):
        return cls(aggregate_mapping_units(records))

    def __len__(self):
        return len(self._index)

    def __contains__(self, mu):
        return mu != self.nodata_id and mu in self._index

    def lookup_many(self, ids):
        """ Batch lookup over an integer array of any shape. Returns two
            float64 arrays of the same shape. """
        ids = np.asarray(ids)
        pos = self._index.get_indexer(ids.reshape(-1).astype(np.int64))
        found = pos >= 0

        bulk = np.full(pos.shape, np.nan)
        soc = np.full(pos.shape, np.nan)
        bulk[found] = self._bulk[pos[found]]
        soc[found] = self._soc[pos[found]]
        return bulk.reshape(ids.shape), soc.reshape(ids.shape)

    def lookup(self, mu):
        bulk, soc = self.lookup_many(np.array([mu]))
        return float(bulk[0]), float(soc[0])
