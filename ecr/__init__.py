"""Extra Container Reconciler (ECR).

Installs declaratively built NixOS containers on a host and converges the
running set towards the build:
 - classify each container as unchanged, config-only changed or fully changed
 - install changed units/configs into the mutable host directories (with GC roots)
 - start, live-update or restart containers as requested
 - restart via stop / terminate-with-retries / start, since a plain restart
   does not reliably terminate the backing machine
"""
