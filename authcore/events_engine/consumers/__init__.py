"""SQS consumers fed by the events engine topic."""
