# Core package: configuration, logging, exceptions and API helpers
