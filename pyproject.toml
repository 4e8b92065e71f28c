[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "insfusion"
version = "0.1.0"
description = "IMU attitude estimation and control: quaternion EKF, Kalman filter, PID, observers and numeric helpers"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["imu", "ekf", "kalman", "quaternion", "attitude", "pid", "control", "sensor-fusion"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["insfusion"]

[tool.pytest.ini_options]
addopts = "-ra"
