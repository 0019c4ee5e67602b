from flume_water_exporter.cli import app

app(prog_name="flume-water-exporter")
