from DefectClusterTools.solver.solver_1d import (Solver1DHandler,
                                                 SparseStencilMatrix,
                                                 SerialCommunicator,
                                                 create_solver_handler,
                                                 generate_grid)
