# dcmwalking

Building blocks for walking control of a humanoid robot based on the
Divergent Component of Motion (DCM). Everything is plain Python on top of
numpy and scipy; configuration is given as ordinary mappings, the way it
would come out of an `.ini`, TOML or YAML file.

## Modules

- **`dcmwalking.utils`**: configuration readers (`get_string`, `get_number`,
  `get_int`, `get_vector`, `list_to_vector`, `list_to_strings`,
  `add_string_list`), sparse-matrix helpers (`Triplet`, `shift_triplets`,
  `triplets_from_values`, `sparse_from_triplets`), `skew_symmetric`, angle
  helpers (`normalize_angle_positive`, `normalize_angle`,
  `shortest_angular_distance`), `merge_vectors` and `append_to_deque`.
  A missing or malformed entry raises `ConfigError` (a `ValueError`).
  `get_number` accepts only floats, `get_int` only integers.
- **`dcmwalking.time_profiler`**: `Timer` and `TimeProfiler`. Named timers
  are started and stopped; every `period` calls of `profiling()` the average
  duration of each timer, in milliseconds of process time, is logged and
  returned as a string (`None` on the other calls).
- **`dcmwalking.dcm_model`**: `Integrator` (trapezoidal rule) and
  `StableDCMModel`, which integrates the CoM from a desired DCM position
  with `com_velocity = -omega * (com - dcm)`.
- **`dcmwalking.reactive_controller`**: `DCMReactiveController`, giving the
  desired ZMP as `dcm_ref - dcm_ref_velocity / omega - kDCM * (dcm_ref - dcm)`.
- **`dcmwalking.mpc_solver`**: `MPCSolver`, the quadratic program
  `min 0.5 x'Px + q'x` subject to `l <= Ax <= u` over stacked states and
  inputs, solved with scipy's SLSQP. Problems raise `SolverError`.
- **`dcmwalking.mpc_controller`**: `DCMModelPredictiveController`, an MPC
  that chooses the ZMP so the DCM follows a reference while the ZMP stays in
  the support polygon (`ConvexHull2D`) of the feet in contact, plus the
  matrix builders `theta_matrix`, `stacked_triplets`,
  `equality_constraints_triplets`, `hessian_matrix` and
  `rectangle_from_offsets`.
- **`dcmwalking.logger_server`**: `WalkingLoggerModule`, which answers
  `record` / `quit` commands by opening and closing a timestamped
  `Dataset_YYYY_MM_DD_HH_MM_SS.txt` file and appends one row per `update`.
  Data that cannot be stored raises `LoggerError`.
- **`dcmwalking.joypad`**: `JoypadModule`, which turns joypad buttons into
  walking commands (`JoypadCommand`) and the left stick into a goal
  position, with the `deadzone` filter applied to the sticks.

## Reactive DCM control

```python
from dcmwalking.reactive_controller import DCMReactiveController

controller = DCMReactiveController.from_config(
    {"kDCM": 1.5, "com_height": 0.53, "gravity_acceleration": 9.81}
)
controller.set_feedback([0.01, 0.0])
controller.set_reference([0.02, 0.0], [0.0, 0.0])
desired_zmp = controller.evaluate_control()
```

## Integrating the CoM

```python
from dcmwalking.dcm_model import StableDCMModel

model = StableDCMModel.from_config({"com_height": 0.53, "sampling_time": 0.01})
model.reset([0.0, 0.0])
model.set_input([0.05, 0.0])
model.integrate()
print(model.com_position, model.com_velocity)
```

## Model predictive control

Feet poses are 4x4 homogeneous transforms. The contact status is read from
the first element of each sequence; the problem is rebuilt only when it
changes.

```python
import numpy as np
from dcmwalking.mpc_controller import DCMModelPredictiveController

config = {
    "initial_zmp_position": [0.0, 0.0],
    "sampling_time": 0.016,
    "controllerHorizon": 0.16,
    "stateWeightTriplets": [[0, 0, 10.0], [1, 1, 10.0]],
    "inputWeightTriplets": [[0, 0, 1.0], [1, 1, 1.0]],
    "com_height": 0.53,
    "foot_size": [[-0.05, 0.1], [-0.03, 0.03]],
}
controller = DCMModelPredictiveController.from_config(config)

left, right = np.eye(4), np.eye(4)
left[1, 3], right[1, 3] = 0.07, -0.07
controller.set_convex_hull_constraint([left], [right], [True], [True])
controller.set_feedback([0.0, 0.0])
controller.set_reference_signal([[0.01, 0.0]] * 11, reset_trajectory=True)
zmp = controller.solve()
```

`solve()` raises `SolverError` when the solver fails or when the ZMP falls
outside the support polygon by more than `convex_hull_tolerance`.

## Recording a dataset

```python
from dcmwalking.logger_server import WalkingLoggerModule

with WalkingLoggerModule.from_config(
    {"name": "logger", "data_port_name": "/data:i", "rpc_port_name": "/rpc:i"},
    directory="logs",
) as module:
    module.respond(["record", "zmp_x", "zmp_y"])  # 1: file opened
    module.update([0.01, 0.02])                   # one row: time, values
    module.update(None)                           # nothing arrived, nothing written
    module.respond(["quit"])                      # 1: file closed
```

`respond` returns 1 on success and 0 otherwise (an unknown command, `record`
while recording, `quit` while not recording).

## Joypad

`JoypadModule` works with objects supplied by the caller:

- a joypad with `get_button(index)` and `get_axis(index)`;
- `rpc`, a callable that receives a command as a list of strings;
- `goal_sink`, a callable that receives the goal as a numpy array `[x, y]`;
- a connector with `connect(source, destination)` and
  `is_connected(source, destination)`.

On each `update()` the first pressed button wins, in this order: A (0)
sends `prepareRobot`, B (1) `startWalking`, Y (4) `pauseWalking`,
X (3) `stopWalking`; L1 (6) with R1 (7) reconnects the command and goal
channels that are not connected. With no button pressed, the goal
`[-scale_y * deadzone(axis 1), -scale_x * deadzone(axis 0)]` is sent.
`from_config` reads `name`, `deadzone`, `fullscale`, `scale_x`, `scale_y`,
`device` (with `local`/`remote` for `JoypadControlClient`, `sticks`
otherwise), the four port names and the optional `period`.

## Angles

```python
import math
from dcmwalking.utils import shortest_angular_distance

shortest_angular_distance(0.0, 3 * math.pi / 2)  # -pi/2
```

## What the package does not do

There is no command-line program and no main loop: the caller runs
`update()`, `profiling()` and the controllers at its own rate. There is no
network transport. The port names built by `WalkingLoggerModule` and
`JoypadModule` are only stored; data, commands and goals move through the
method calls and the callables and connector objects the caller supplies.
No joypad driver is included either.

## Tests

The test suite uses pytest; install the `test` extra and run `pytest`.