import logging
import time
from pathlib import Path

import numpy as np
import pandas as pd

from mapcraft.config import set_map_mode
from mapcraft.maps import FacetedMapRenderer, InteractiveMapRenderer, StaticMapRenderer, load_animation
from mapcraft.maps.spec import map_shape, view
from mapcraft.raster import RasterDataLoader
from mapcraft.vector import VectorDataLoader
from mapcraft.vector.conversion import from_feature_collection, to_feature_collection
from mapcraft.vector.transforms import (
    centroid, extract_geometry_type, graticule, intersection, reproject, union
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

output_dir = Path("walkthrough_output")
output_dir.mkdir(parents=True, exist_ok=True)
start = time.time()

vectors = VectorDataLoader()
rasters = RasterDataLoader()
static = StaticMapRenderer()
rng = np.random.default_rng(2020)


def save_map(canvas, name):
    canvas.save(output_dir / name)
    canvas.close()


# Vector data
print("[INFO] Loading world")
world = vectors.load("world")
print(f"[INFO] Columns: {vectors.column_names(world)}")
print(f"[INFO] gdpPercap summary: {vectors.summarize(world, 'gdpPercap')['statistics']}")

save_map(static.plot(world), "world_all.png")
save_map(static.plot(world, "gdpPercap"), "world_gdp.png")

sub_world = vectors.subset(world, rows=(0, 2), columns=(0, 3))
print(f"[INFO] Subset: {len(sub_world)} rows, columns {list(sub_world.columns)}")
save_map(static.plot(sub_world), "sub_world.png")

collection = to_feature_collection(world)
world_back = from_feature_collection(collection)
print(f"[INFO] Round trip kept {len(world_back)} of {len(world)} features")

save_map(static.plot(world, list(world.columns[4:7])), "world_5_7.png")
save_map(static.plot(world, "area_km2"), "world_area.png")

world_na = vectors.filter_rows(world, "continent", "North America")
north_america = union(world_na)
save_map(static.plot(north_america), "north_america.png")

static.plot(world, "area_km2", reset=False)
save_map(static.plot(north_america, add=True, color="green"), "world_area_na.png")

static.plot(world, "continent", reset=False)
world_pop = centroid(world, of_largest_polygon=True)
save_map(static.plot(world_pop, add=True, size="pop"), "world_pop.png")

world_proj = reproject(world, "+proj=eck4")
world_pop2 = centroid(world_proj, of_largest_polygon=True)
static.plot(world_proj, "continent", reset=False, legend=False)
static.plot(graticule(crs="+proj=eck4"), add=True, reset=False, color="lightgrey")
save_map(static.plot(world_pop2, add=True, size="pop"), "world_eck4.png")
print(f"[INFO] Vector section done in {time.time() - start:.2f}s")

# Raster data
utah = rasters.open("srtm")
print(f"[INFO] srtm: {utah.describe()['dimensions']}, CRS {utah.crs}")
save_map(static.plot(utah), "srtm.png")

new_raster = rasters.create(-1.5, 1.5, -1.5, 1.5, res=0.5, values=np.arange(1, 37))
save_map(static.plot(new_raster), "new_raster.png")

raster_brick = rasters.brick("landsat")
print(f"[INFO] landsat brick: {raster_brick}")
save_map(static.plot(raster_brick), "landsat_brick.png")

ls1 = raster_brick.layer(1)
xmin, xmax, ymin, ymax = ls1.extent
random_raster = rasters.create(xmin, xmax, ymin, ymax, res=30,
                               values=rng.permutation(ls1.ncell) + 1,
                               crs=ls1.crs, name="random")
raster_stack = rasters.stack([ls1, random_raster])
print(f"[INFO] Stack: {raster_stack}")
save_map(static.plot(raster_stack), "landsat_stack.png")

grain_type = ["clay", "silt", "sand"]
grain = pd.Categorical(rng.choice(grain_type, 36), categories=grain_type)
grain_raster = rasters.create(-1.5, 1.5, -1.5, 1.5, res=0.5, values=grain, name="grain")
grain_raster.add_level_attribute("wetness", ["wet", "moist", "dry"])
print(f"[INFO] Levels:\n{grain_raster.levels}")
print(f"[INFO] Factor values:\n{grain_raster.factor_values([1, 14, 35])}")

save_map(static.arrange([new_raster, grain_raster], ncol=2), "new_and_grain.png")
print(f"[INFO] Raster section done in {time.time() - start:.2f}s")

# Static maps
us_states = vectors.load("us_states")
save_map(map_shape(us_states).polygons().render("plot"), "us_states.png")

area = map_shape(us_states).polygons("AREA", style="jenks")
pop2010 = map_shape(us_states).polygons("total_pop_10", style="jenks")
pop2015 = map_shape(us_states).polygons("total_pop_15", style="jenks")
save_map(static.arrange([area, pop2010, pop2015]), "us_states_arranged.png")

# Faceted maps
urban = vectors.load("urban_agglomerations")
urban_hotspots = vectors.filter_rows(urban, "year", [1970, 1990, 2010, 2030])
facet_map = (
    map_shape(world).polygons()
    + map_shape(urban_hotspots)
    .symbols(size="population_millions", color="black")
    .facets(by="year", nrow=2, free_coords=False)
)
canvas = FacetedMapRenderer().render(facet_map)
print(f"[INFO] Facet panels: {canvas.panel_values}")
save_map(canvas, "urban_facets.png")

# Animated maps
world_hotspots = (
    map_shape(vectors.filter_rows(world, "continent", "Antarctica", exclude=True)).polygons()
    + map_shape(urban)
    .symbols(size="population_millions", color="purple", alpha=0.5, title="Population (m)")
    .facets(along="year", free_coords=False)
)
gif_path = FacetedMapRenderer().animate(world_hotspots, output_dir / "urban_animation.gif",
                                        width=1200, height=800)
frames = load_animation(gif_path)
print(f"[INFO] Animation has {len(frames)} frames of {frames[0].size}")

# Interactive maps
interactive = InteractiveMapRenderer()
previous = set_map_mode("view")
topo_map = map_shape(us_states).borders().basemap("OpenTopoMap").render()
interactive.save(topo_map, output_dir / "us_states_topo.html")
set_map_mode(previous)

interactive.save(interactive.render_spec(view(us_states)), output_dir / "us_states_view.html")

franconia = vectors.load("franconia")
trails = reproject(vectors.load("trails"), franconia.crs)
oberfranken = vectors.filter_rows(franconia, "district", "Oberfranken")
trail_lines = extract_geometry_type(intersection(trails, oberfranken), "LINE")
breweries = vectors.load("breweries")

trail_map = (
    view(trail_lines, color="red", line_width=3, layer_name="trails")
    + view(franconia, column="district", burst=True)
    + breweries
)
interactive.save(interactive.render_spec(trail_map), output_dir / "franconia.html")

print(f"[INFO] Outputs written to {output_dir}")
print(f"[INFO] Total elapsed time: {time.time() - start:.2f}s")
