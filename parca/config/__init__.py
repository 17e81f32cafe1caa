"""Loading, validating and reloading the server configuration."""