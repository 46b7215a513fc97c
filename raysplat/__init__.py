"""RaySplat – lidar footprint simulator over triangle-mesh scenes.

Per scan the sensor casts a fixed spherical grid of rays, keeps the nearest
hit per ray and turns it into an oriented ellipse ("splat") whose size follows
beam divergence, pulse length and incidence angle. Footprints land in a
fixed-capacity ring buffer that a display sink or snapshot writer reads.

- MeshScene / SceneObject (core.scene)
- Intersection providers (core.intersector) [NumPy & Embree backends]
- Nearest-hit raycaster (core.raycaster)
- Footprint estimation (core.footprint)
- Ring buffer and scan scheduler (core.ringbuffer, core.scheduler)
- Simulator driver (core.pipeline)
- Sinks and snapshot writers (core.exporter)
"""

from .core.errors import BufferInvariantError, InvalidConfig
from .core.scene import MeshScene, SceneObject
from .core.intersector import (RayBundle, RayHits, Intersector,
                               NumpyIntersector, EmbreeIntersector, AutoIntersector)
from .core.raycaster import Hit, HitBatch, NearestHitRaycaster
from .core.footprint import FootprintBatch, FootprintEstimator, PointRecord
from .core.ringbuffer import PointRingBuffer
from .core.scheduler import ScanScheduler, ScanState
from .core.exporter import InstanceArraySink, LasWriter, NpzWriter, PlyWriter
from .core.pipeline import ScanResult, Simulator
from .motion.trajectory import (CircularMotion, MotionPolicy, PolylineMotion,
                                SensorState, SinusoidalMotion, StaticMotion)
from .runtime.pulse import OneShotTimer, PulseIndicator
from .sensors.lidar import LidarSensor, ScanConfig
from .sensors.patterns import SphericalGridPattern, sampling_grid
