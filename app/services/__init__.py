"""
Service Organization
====================
Services are organized by their lifecycle and instantiation pattern:

**application/**
  Singleton services managed by ServiceContainer. One instance per application.
  Examples: ScheduleStore

**utilities/**
  Adapters to external collaborators, safe to instantiate more than once.
  Examples: EnergyGatewayClient

**protocols.py**
  The boundary interfaces (DeviceControl, ForecastEvaluator, UserProfileStore,
  LeaseProvider) the jobs and the store depend on.
"""
