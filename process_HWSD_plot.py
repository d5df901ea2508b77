""" Quick-look map of a coarse HWSD NetCDF output """
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import xarray as xr


def plot_coarse(nc_path, var_name, png_path, dpi=300.):
    with xr.open_dataset(nc_path) as ds:
        da = ds[var_name].load()

    fig, ax = plt.subplots(figsize=(8, 4.5))

    # pcolormesh treats boundaries correctly and is faster than contourf
    im = da.plot.pcolormesh(ax=ax, x='lon', y='lat', cmap='viridis', add_colorbar=False)

    ax.set_title(da.attrs.get('long_name', var_name))
    ax.set_xlabel('Longitude')
    ax.set_ylabel('Latitude')
    cbar = plt.colorbar(im, ax=ax, orientation='horizontal', pad=0.1, aspect=50)
    cbar.set_label(da.attrs.get('units', ''))
    plt.savefig(png_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)

    return png_path
