import pandas as pd
import numpy as np

def generate_mock_sites(num_sites=60, sites_file="mock_sites.csv", route_file="mock_fiber_route.kml"):
    """
    Generates a sites CSV (ready for `manage.py import_sites`) and one KML fiber
    route that winds through the valley, so nearest-fiber connectors have
    something realistic to snap to.
    """
    # Center around Kathmandu, same as the map's default view
    CENTER_LAT = 27.7172
    CENTER_LON = 85.3240

    # 1. Sites scattered within ~10km (roughly 0.09 degrees)
    data = []
    for site_index in range(num_sites):
        lat = CENTER_LAT + np.random.uniform(-0.09, 0.09)
        lon = CENTER_LON + np.random.uniform(-0.09, 0.09)

        # about 1 in 10 sites has not been surveyed yet
        surveyed = np.random.random() > 0.1

        data.append({
            "name": f"KTM-{str(site_index+1).zfill(3)}",
            "location": f"Ward {np.random.randint(1, 33)}, Kathmandu",
            "latitude": np.round(lat, 6) if surveyed else None,
            "longitude": np.round(lon, 6) if surveyed else None,
            "power_details": np.random.choice(["NEA grid", "NEA grid + DG backup", "Solar hybrid"], p=[0.5, 0.35, 0.15]),
            "transmission_details": np.random.choice(["Fiber", "Microwave"], p=[0.7, 0.3]),
        })

    df = pd.DataFrame(data)
    df.to_csv(sites_file, index=False)
    print(f"✅ Generated {num_sites} sites and saved to '{sites_file}'")

    # 2. Fiber route: a west-to-east random walk across the valley
    steps = 80
    lons = np.linspace(CENTER_LON - 0.1, CENTER_LON + 0.1, steps)
    lats = CENTER_LAT + np.cumsum(np.random.normal(0, 0.003, steps))
    coordinates = " ".join(f"{lon:.6f},{lat:.6f},0" for lon, lat in zip(lons, lats))

    kml = f"""<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>Mock backbone</name>
    <Placemark>
      <name>KTM ring segment A</name>
      <ExtendedData>
        <Data name="cores"><value>48</value></Data>
      </ExtendedData>
      <LineString>
        <coordinates>{coordinates}</coordinates>
      </LineString>
    </Placemark>
  </Document>
</kml>
"""
    with open(route_file, mode="w", encoding="utf-8") as file:
        file.write(kml)
    print(f"✅ Generated a {steps}-point fiber route into '{route_file}'")

    # Quick look at how many sites are on the map
    print(f"\nSites with coordinates: {df['latitude'].notna().sum()} / {num_sites}")
    print(df['transmission_details'].value_counts().to_string())

if __name__ == "__main__":
    generate_mock_sites(num_sites=60)
