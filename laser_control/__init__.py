"""
Laser Control Package.

Driver for the LAOS laser cutter controller.  Turns a job (vector paths
plus 1-bit and grayscale raster regions) into the controller's
instruction stream and delivers it over TCP or TFTP.

Subpackages:
    job_ir: Job model, toolpath operations, YAML job-file loader
    raster: Boustrophedon scan-line rasterizer
    encoding: Simple / G-code dialects, state minimizer, job encoder
    hardware: Cutter driver, transports, TFTP client
    configs: Device configuration loading and string settings
    utils: Logging and filesystem helpers
"""

__all__ = ["job_ir", "raster", "encoding", "hardware", "configs", "utils"]
