"""
debinfer — Test Suite
=====================

Test modules:
- test_priors.py: prior family dispatch
- test_parameters.py: parameter declarations and block ordering
- test_proposals.py: proposal kernels, acceptance, adaptation rule
- test_solvers.py: scipy solver adapters (ODE and DDE)
- test_posterior.py: posterior evaluation and failure handling
- test_sampler.py: componentwise adaptive MH engine
- test_chain.py: chain storage
- test_predictive.py: posterior predictive simulation
"""
