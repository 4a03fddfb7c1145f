# sdmetrics-adapter

Building blocks for a Kubernetes metrics adapter that reads from Cloud
Monitoring: option parsing, metric-name mapping, an expiring cache for
external metric results, plain value types for metric results, and the
kubelet summary statistics types. It also ships two small exporters that
publish a constant metric, for trying an autoscaling setup end to end.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Command-line tools

### prometheus-dummy-exporter

Serves a single gauge of constant value in the Prometheus text format at
`/metrics` on all interfaces. Other paths answer 404.

```
prometheus-dummy-exporter --metric-name foo --metric-value 40 --port 8080
```

Defaults: metric name `foo`, value `0`, port `8080`. Flags may also be given
with a single dash (`-port 8080`).

### sd-dummy-exporter

Writes a constant custom metric (`custom.googleapis.com/<name>`) to Cloud
Monitoring every five seconds. It is meant to run as a pod in a cluster on
the cloud platform: project, zone, cluster name and location are read from
the instance metadata server (`GCE_METADATA_HOST` overrides its address),
and the access token comes from the same place.

Old resource model (`gke_container`), on by default, needs the pod id:

```
sd-dummy-exporter --pod-id "$POD_ID" --metric-name foo --metric-value 40
```

New resource model (`k8s_pod`) needs the pod name and namespace:

```
sd-dummy-exporter --use-old-resource-model=false --use-new-resource-model \
    --pod-name "$POD_NAME" --namespace "$NAMESPACE" \
    --metric-name foo --metric-value 40 --metric-labels bar=1
```

Both models may be on at once; then each round writes one series for each.
Metric labels are comma-separated `key=value` pairs (default `bar=1`). Pod
id and name are usually passed in through the Downward API. Missing required
settings make the command log an error and exit with status 1.

## Library overview

| Module | What it holds |
| --- | --- |
| `sdmetrics_adapter.apitypes` | Value types: `NamespacedName`, `ObjectMeta`, `GroupResource`, `TimeInfo`, `ContainerMetrics`, `PodMetrics`, `NodeMetrics`, `ExternalMetricInfo`, `ExternalMetricValue`, `ExternalMetricValueList` |
| `sdmetrics_adapter.cache` | `LRUExpireCache` and `ExternalMetricsCache`, keyed by `CacheKey` |
| `sdmetrics_adapter.options` | `ServerOptions`, `parse_server_options`, `check_server_options`, `select_custom_metrics`, `validate_url`, `parse_duration`, `OptionsError` |
| `sdmetrics_adapter.names` | `get_custom_metric_name`, `get_external_metric_name`, `list_all_external_metrics` |
| `sdmetrics_adapter.stats` | Kubelet summary statistics (`Summary`, `NodeStats`, `PodStats`, ...) with JSON round-tripping |
| `sdmetrics_adapter.prometheus_exporter` | `render_gauge`, `make_server` and the exporter's `main` |
| `sdmetrics_adapter.sd_exporter` | `MetadataClient`, `MonitoringClient`, `build_time_series_request`, `export_metric` and the exporter's `main` |

### Metric names

Metric names arrive escaped, with `|` standing for `/`:

```python
from sdmetrics_adapter.names import get_custom_metric_name, get_external_metric_name

get_custom_metric_name("foo")                    # "custom.googleapis.com/foo"
get_custom_metric_name("example.com|my|metric")  # "example.com/my/metric"
get_external_metric_name("a|b|c")                # "a/b/c"
```

### Server options

```python
from sdmetrics_adapter.options import (
    check_server_options,
    parse_duration,
    parse_server_options,
    validate_url,
)

options = parse_server_options(["--use-new-resource-model", "--external-metric-cache-ttl", "1m"])
check_server_options(options)   # raises OptionsError on invalid combinations

parse_duration("1h30m")                          # timedelta(seconds=5400)
validate_url("https://monitoring.example.com/")  # True
validate_url("example.com/")                     # False
```

Container-metrics fallback and the core metrics API both require the new
resource model, and a Stackdriver endpoint, when given, must be a URL with
scheme and host; `check_server_options` raises `OptionsError` otherwise.
`select_custom_metrics(metrics, False)` keeps only the first metric, which is
what the adapter lists during API discovery unless
`--list-full-custom-metrics` is set.

### External metric cache

```python
from datetime import timedelta

from sdmetrics_adapter.apitypes import ExternalMetricInfo, ExternalMetricValueList
from sdmetrics_adapter.cache import CacheKey, ExternalMetricsCache

cache = ExternalMetricsCache(size=300, ttl=timedelta(minutes=1))
key = CacheKey("default", "resource.labels.project_id=my-project", ExternalMetricInfo("my-metric"))
cache.add(key, ExternalMetricValueList())
cache.get(key)   # the stored list until the TTL passes, then None
```

The cache keeps at most `size` entries, evicting the least recently used;
lookups of expired or evicted keys return `None`. A clock function may be
passed for testing.

### Kubelet statistics

```python
from sdmetrics_adapter.stats import summary_from_json, summary_to_json

summary = summary_from_json('{"node": {"nodeName": "node-1"}, "pods": []}')
summary.node.node_name   # "node-1"
summary_to_json(summary)
```

Malformed input raises `ValueError`; optional fields that are empty are left
out when serialising.

## What the package does not do

It does not run the metrics adapter API server, and it does not query Cloud
Monitoring for metric values or descriptors; there is no provider here that
answers custom, external or resource metric requests. The pieces above are
the parts of such an adapter that stand on their own. The only network
traffic the package makes is the exporters': serving `/metrics`, and writing
time series and reading instance metadata in `sd-dummy-exporter`.