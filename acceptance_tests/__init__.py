"""
Live acceptance suite for the metrics dashboard module.

Runs against a real host: the manifest is applied through Puppet, then
InfluxDB and Grafana are probed over the network. Nothing is mocked.

Enable with ACCEPTANCE_ENABLED=1.
"""
