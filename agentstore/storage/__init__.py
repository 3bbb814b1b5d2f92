"""Storage records, the backend interface, and in-memory and filesystem backends."""